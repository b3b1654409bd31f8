"""
Trampolines to the main module at savelinkmenus.main,
so that the tool can be launched with `python -m savelinkmenus`.
"""

from savelinkmenus.main import main

if __name__ == '__main__':
    main()
