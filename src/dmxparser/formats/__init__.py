"""Schemas for specific kinds of DMX file, built on :py:mod:`dmxparser.deserialize`."""
