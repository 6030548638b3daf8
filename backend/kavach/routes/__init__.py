# kavach/routes/__init__.py
