"""Backend endpoint helpers.

Internal to sparkmap; the public surface is :mod:`sparkmap.client`.
"""
