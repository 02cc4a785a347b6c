"""
Integrations feature package.

Provider adapters, credential handling, classification and the sync
orchestrator live here together with their repositories, jobs and
routes. Import from the subpackages directly; the services layer and the
updates feature depend on each other.
"""
