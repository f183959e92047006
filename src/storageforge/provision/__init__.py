"""
StorageForge Provisioning.

The stages of a provisioning run, in the order the strategy selector calls
them: partitioning, composition, formatting, mounting and identity capture.
"""
