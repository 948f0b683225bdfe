"""
Client-side session player: state machine, persistence boundary and driver.
"""
