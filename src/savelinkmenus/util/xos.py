import platform

# === OS Detection ===

def is_windows() -> bool:
    return (platform.system() == 'Windows')


def is_linux() -> bool:
    return (platform.system() == 'Linux')


# === wxPython Port Detection ===

def is_wx_gtk() -> bool:
    return is_linux()
