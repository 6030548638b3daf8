# kavach/__init__.py
# ------------------------------------------------------------
# Rail Kavach train-safety dashboard backend.
# ------------------------------------------------------------
