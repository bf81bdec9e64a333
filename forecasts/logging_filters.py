import logging

STRUCTURED_FIELDS = ('event', 'kind', 'location', 'provider', 'cache_tier', 'latency', 'error')


class ExtraFieldsFilter(logging.Filter):
    def filter(self, record):
        for name in STRUCTURED_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, 'unknown' if name == 'event' else '-')
        return True
