# backend/wsgi.py
from tradeledger import create_app

app = create_app()
