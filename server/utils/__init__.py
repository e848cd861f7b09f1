"""
Small helpers shared by the routes: signatures, staff auth, QR codes.
"""
