"""Desktop Bridge: sway and PulseAudio control for Home Assistant over MQTT."""
