UNITS = ("B", "KB", "MB", "GB", "TB", "PB")


def human_size(num_bytes: int) -> str:
    """Render a byte count with binary (1024) units and two decimals."""
    value = float(num_bytes)
    for unit in UNITS[:-1]:
        if abs(value) < 1024:
            return f"{value:.2f} {unit}"
        value /= 1024
    return f"{value:.2f} {UNITS[-1]}"
