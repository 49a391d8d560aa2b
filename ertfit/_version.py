__version__ = "0.1.0"

# no custom setuptools commands
cmdclass = {}
