from app.orgms import create_app

app = create_app()
