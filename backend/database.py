from flask_sqlalchemy import SQLAlchemy

# Shared SQLAlchemy handle. Bound to the Flask app inside create_app().
db = SQLAlchemy()
