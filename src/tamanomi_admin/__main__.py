from tamanomi_admin.cli import cli

cli()
