# backend/wsgi.py
from erms import create_app

app = create_app()
