# backend/wsgi.py
from rentstock import create_app

app = create_app()
