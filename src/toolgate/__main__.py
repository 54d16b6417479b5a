from toolgate.main import app

app(prog_name="toolgate")
