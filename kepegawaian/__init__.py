"""Employee records backend: DB models, schema bootstrap, document uploads, API.

Stores ASN and P3K personnel records with up to four PDF documents each and
serves them to the dashboard over HTTP.
"""
