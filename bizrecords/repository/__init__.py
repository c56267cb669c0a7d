"""Record service contract, backends, and entity repositories.

Primary components:
- ``base``: abstract ``RecordService`` interface and the failure taxonomy.
- ``fields``: declarative ``EntitySchema`` / ``FieldSpec`` tables and coercion.
- ``adapter``: generic ``EntityRepository`` built on a schema.
- ``entities``: the client, customer, hobby, project, and task repositories.
- ``http_client`` / ``memory``: concrete record services.
- ``factory``: helpers to construct a service and wire the repositories.

Guidance:
- Prefer ``factory.create_record_service_from_env`` plus
  ``factory.create_repositories`` so callers stay decoupled from backends.
"""
