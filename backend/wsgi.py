# backend/wsgi.py
from restops import create_app

app = create_app()
