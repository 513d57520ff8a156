"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~attach_credentials.exceptions.AttachCredentialsError`
subclass. Shell wrappers around the ``attach-credentials`` CLI can inspect
the exit code to tell a bad credential apart from a missing identity or an
unreachable token endpoint without parsing stderr.

Example::

    $ attach-credentials apply alice github
    $ echo $?
    6   # EXIT_TRANSIENT_FAILURE -- the token endpoint could not be reached
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred (also used for configuration problems)."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_CREDENTIAL_FAILURE = 3
"""Stored credential material is unusable (unknown type, bad payload, failed init)."""

EXIT_IDENTITY_FAILURE = 4
"""No usable identity entry exists for the subject and provider."""

EXIT_TRANSIENT_FAILURE = 6
"""The token authority or identity store failed; retrying later may succeed."""

EXIT_PLUGIN_ERROR = 10
"""A plugin or provider strategy is missing or misconfigured."""
