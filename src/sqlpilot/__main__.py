from sqlpilot.main import cli

cli()
