"""
TeamCity SDK - local TeamCity server control for plugin integration tests.

Locates and validates a TeamCity installation, deploys a freshly built plugin
package into the server data directory and runs the distribution's control
script to start or stop the server.
"""

__version__ = "0.1.0"
