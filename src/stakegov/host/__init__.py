"""In-memory host and the reference collaborators: tokens, master, keyring."""

from stakegov.host.chain import Host, Receipt
from stakegov.host.keyring import Keyring
from stakegov.host.master import ReferenceMaster
from stakegov.host.token import ReferenceToken

__all__ = ["Host", "Keyring", "Receipt", "ReferenceMaster", "ReferenceToken"]
