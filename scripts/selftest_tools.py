from __future__ import annotations
import asyncio
import tempfile
import textwrap
from pathlib import Path

from toolgate.app_context import AppContext
from toolgate.tools.permissions import AutoApproval, GrantScope


async def run(ctx: AppContext) -> None:
    d = ctx.dispatcher

    print(await d.execute("write", {"path": "a.txt", "content": "hello\nworld\n"}))
    print("READ:", (await d.execute("read", {"path": "a.txt", "line_numbers": True}))["content"])
    print("GREP:", (await d.execute("grep", {"pattern": "world", "path": "."}))["matches"])
    print("LIST:", (await d.execute("list", {"path": "."}))["entries"])

    # header says line 1, content sits on line 2 after the insert below
    await d.execute("write", {"path": "a.txt", "content": "# header\nhello\nworld\n"})
    diff = textwrap.dedent("""\
    diff --git a/a.txt b/a.txt
    --- a/a.txt
    +++ b/a.txt
    @@ -1,2 +1,2 @@
    -hello
    -world
    +hello!!!
    +world!!!
    """)
    print(await d.execute("apply_patch", {"patch": diff}))
    print("READ2:", (await d.execute("read", {"path": "a.txt"}))["content"])
    print("AGAIN:", (await d.execute("apply_patch", {"patch": diff})).get("rejects"))

    print(await d.execute("bash", {"command": "echo $((1+1))"}))
    print("TIMEOUT:", await d.execute("bash", {"command": "sleep 5"}, timeout_s=0.5))


def main():
    with tempfile.TemporaryDirectory() as td:
        cwd = Path(td)
        ctx = AppContext.from_env(
            cwd,
            session_id="selftest",
            callout=AutoApproval(GrantScope.SESSION),
            events_dir=cwd / ".events",
        )
        asyncio.run(run(ctx))
        print("EVENTS:", [e.type for e in ctx.events.iter_events()][:12])


if __name__ == "__main__":
    main()
