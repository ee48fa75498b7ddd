"""Django settings for the cloud drive server.

Settings are split into components and assembled with
``django-split-settings``. Values come from the environment or from
``config/.env`` via ``python-decouple``.
"""

import django_stubs_ext
from split_settings.tools import include

# Monkeypatching Django, so stubs will work for all generics,
# e.g. ``admin.ModelAdmin[File]``.
django_stubs_ext.monkeypatch()

include(
    'components/common.py',
    'components/logging.py',
    'components/uploads.py',
)
