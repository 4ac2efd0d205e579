"""Data formatting and identifier utilities.

This module provides the small string helpers shared by the bridges:
building MQTT-safe identifiers from human or external names, and
formatting percentages the way the audio server expects them.
"""


def sanitize_topic(name: str) -> str:
    """Sanitize a string for use in MQTT topics and unique identifiers.

    Replaces spaces and special characters with underscores, converts
    to lowercase, and removes problematic characters for MQTT topics.

    Args:
        name: String to sanitize.

    Returns:
        Sanitized string safe for MQTT topics.

    Example:
        >>> sanitize_topic("My PC Name")
        'my_pc_name'
        >>> sanitize_topic("alsa_output.pci-0000_00_1f.3.analog-stereo")
        'alsa_output_pci-0000_00_1f_3_analog-stereo'
        >>> sanitize_topic("eDP-1")
        'edp-1'
    """
    name = name.lower()
    name = name.replace(" ", "_")

    # MQTT wildcards and separators: +, #, /, $, \, ?  Dots break HA object ids.
    for char in ["/", "+", "#", "$", "\\", "?", "."]:
        name = name.replace(char, "_")

    while "__" in name:
        name = name.replace("__", "_")

    return name.strip("_")


def format_percentage(value: int) -> str:
    """Format an integer percentage the way the audio server reports it.

    Example:
        >>> format_percentage(45)
        '45%'
    """
    return f"{value}%"
