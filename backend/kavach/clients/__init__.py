# kavach/clients
# ------------------------------------------------------------
# Outbound HTTP clients (httpx). Each one wraps a single third-party
# service and raises kavach.errors types on failure.
# ------------------------------------------------------------
