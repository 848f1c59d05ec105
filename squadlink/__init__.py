"""
squadlink application package.

Friend-relationship core for the squadlink gaming community, split into
layers:

  squadlink/repositories/   persistence: the relationship edge table and
                            the profile lookup, one short transaction per
                            call.
  squadlink/services/       business logic: request lifecycle, search
                            annotation and the friends dashboard.
  squadlink/api.py          Flask HTTP surface over the services.

``create_app`` (in ``squadlink/api.py``) is the integration point: it builds
the session factory, repositories and services once and exposes the
services to route handlers.
"""

__version__ = '1.0.0'
