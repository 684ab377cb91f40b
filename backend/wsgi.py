# backend/wsgi.py
from waterstation import create_app

app = create_app()
