__version__ = "0.1.1"

if __name__ == "__main__":  # pragma: no cover
    print(__version__)
