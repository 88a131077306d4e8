"""Built-in CLI sub-commands for apicache.

* :mod:`~apicache.commands.cache` -- ``stats``, ``sweep``, ``invalidate``
  and ``clear`` on the response cache (registered on the root app).
* :mod:`~apicache.commands.queue` -- inspect and manage the offline queue
  and its dead letters.
* :mod:`~apicache.commands.config` -- view and modify global settings.
"""
