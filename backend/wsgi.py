# backend/wsgi.py
from rentalshop import create_app

app = create_app()
