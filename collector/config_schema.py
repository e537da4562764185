from node.states import Configuration, State

# States handed to nodes that have no configuration of their own
DEFAULT_STATES = Configuration([
    State("low",    lower_limit=0.0,   upper_limit=50.0,  interval=60,  picture_count=1),
    State("normal", lower_limit=50.0,  upper_limit=150.0, interval=30,  picture_count=1),
    State("high",   lower_limit=150.0, upper_limit=300.0, interval=10,  picture_count=2),
    State("default", lower_limit=0.0, upper_limit=0.0,    interval=10,  picture_count=1),
])
