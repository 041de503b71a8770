"""Internal constants shared across the package."""

PUSHOVER_API_URL = "https://api.pushover.net/1/messages.json"
PUSHOVER_TIMEOUT_S = 10.0

DEFAULT_MQTT_PORT = 1883
DEFAULT_KEEPALIVE_S = 30
DEFAULT_BACKOFF_S = 2.0

# paho's own reconnect pacing, independent of the session backoff.
RECONNECT_MIN_DELAY_S = 1
RECONNECT_MAX_DELAY_S = 30

TOPIC_SEPARATOR = "/"
SINGLE_LEVEL_WILDCARD = "+"
MULTI_LEVEL_WILDCARD = "#"

FLOOD_TOKEN = "true"
APPLIANCE_DONE_TOKEN = "ProgramFinished"
DOOR_OPEN_VALUE = 1

ENV_PUSHOVER_USER = "MQTTNOTIFY_PUSHOVER_USER"
ENV_PUSHOVER_TOKEN = "MQTTNOTIFY_PUSHOVER_TOKEN"
