"""Adapters: the learning components behind the engine services.

Bridges the domain core to the streaming tree, its concept drift detectors,
the multivariate SPC detector, the ensemble voter and the notification sinks.
"""
