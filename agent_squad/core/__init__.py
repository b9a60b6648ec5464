"""Core session control for Agent Squad.

Import from the submodules directly (``agent_squad.core.session``,
``agent_squad.core.registry``, ``agent_squad.core.terminal``); the
constants module is imported by the service and model layers, so this
package does not pull the heavier modules in eagerly.
"""
