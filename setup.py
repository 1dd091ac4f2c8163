#!/usr/bin/env python3

from setuptools import setup
import time

setup(
  name='''Handlr''',
  version=time.strftime('%Y.%m.%d.%H.%M.%S', time.gmtime(1792368000)),
  description='''Open files and URLs with their preferred handlers and manage MIME-type associations with wildcards, selectors and regular expressions.''',
  author='''Xyne''',
  author_email='''ac xunilhcra enyx, backwards''',
  py_modules=['''Handlr'''],
  python_requires='>=3.11',
  install_requires=['pyxdg'],
  extras_require={
    'test': ['pytest'],
  },
  entry_points={
    'console_scripts': ['handlr = Handlr:run'],
  },
)
