from core_exchange import create_app

app = create_app()
