from app.escapes import create_app

app = create_app()
