"""
Test support utilities for pgshape tests.

Fakes for result readers and psycopg connections live in ``fakes``; they
are plain classes rather than fixtures so tests can parametrize them.
"""
