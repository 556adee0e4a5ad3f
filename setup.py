"""Build the dmxparser package."""
from setuptools import setup


setup()
