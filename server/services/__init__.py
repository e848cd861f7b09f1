"""
Domain services: directory, ledger, attendance, plans, payments, gateway.
"""
