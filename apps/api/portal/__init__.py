"""
Portal package
Client-side core of the clinic site: the booking wizard, payment bridge,
doctor dashboard, availability editor, reviews board and prescription
writer/viewer. Everything here talks to the clinic API over HTTP.
"""
