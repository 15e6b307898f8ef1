# backoffice/services/__init__.py
