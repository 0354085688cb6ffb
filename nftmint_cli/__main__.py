from nftmint_cli.main import app

app(prog_name="nftmint")
