"""
Repeater Control: MQTT remote-control agent for a radio repeater.

Connects to a broker with a last will, subscribes to the command topic,
runs operator commands on the host and publishes their output to the
status topic.
"""
