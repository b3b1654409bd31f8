"""
Graphical hosts for Save Link Menus.

Importing a module from this package requires wxPython,
which is installed with the "gui" extra.
"""
