from registration_intake.cli import app

app(prog_name="intake")
