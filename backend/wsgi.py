# backend/wsgi.py
from wims import create_app

app = create_app()
