"""
Services package for the clinic API
Contains business logic shared by the routers: slot resolution,
booking creation and the payment gateway.
"""
