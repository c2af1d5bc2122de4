"""ACME protocol client.

This package implements the client side of the draft `ACME protocol`_
(``new-reg``, ``new-authz``, ``new-cert`` resources): directory
discovery, account registration, domain authorization with http-01
challenges and certificate issuance.

.. _`ACME protocol`: https://tools.ietf.org/html/draft-barnes-acme-04

"""
