from cashledger import create_app

app = create_app()
