# ldapmapper.connection calls python-ldap through this module rather than
# importing ldap directly, so that python-ldap-faker (ldap_modules =
# ["ldapmapper"]) can replace ``ldapmapper.ldap.initialize`` in tests.
import ldap
from ldap import *  # noqa: F403

__version__ = ldap.__version__
