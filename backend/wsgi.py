# backend/wsgi.py
from trustpos import create_app

app = create_app()
