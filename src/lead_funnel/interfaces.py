"""Abstract interfaces for collaborators outside the funnel core.

The third-party form-certification script runs in the browser and reports
its reference asynchronously, possibly after the user has already submitted
the contact step.  The gateway treats it as an optional, late-arriving
input behind this interface::

    source: CertificationTokenSource = MyCertificationSource(...)
    result = await gateway.deliver(record, token_source=source)

The SDK ships one trivial implementation,
:class:`~lead_funnel.gateway.StaticCertificationToken`.
"""

from abc import ABC, abstractmethod
from typing import Optional


class CertificationTokenSource(ABC):
    """Provides the form-certification reference for a lead, if any."""

    @abstractmethod
    async def get_token(self) -> Optional[str]:
        """Return the certification reference.

        Returns
        -------
        str or None
            The token, or ``None`` when the certification service never
            produced one.  The caller bounds how long it waits; an
            implementation may simply block until a token is known.
        """
        ...
