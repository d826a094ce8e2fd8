import ntpath

from evtx_source import NoMatchingEvents, RawEvent, SourceReadError

ARCHIVE_DIR = r"C:\Logs"


def archive_path(name):
    return ntpath.join(ARCHIVE_DIR, name)


def ev(event_id, ts, **data):
    return RawEvent(event_id=event_id, time_created=ts, data=data)


class FakeEventLog:
    """In-memory stand-in for PowerShellEventLog."""

    def __init__(self, archives=None, events=None, windows=None, unreadable=(), list_error=None):
        self.archives = list(archives or [])
        self.events = dict(events or {})
        self.windows = dict(windows or {})
        self.unreadable = set(unreadable)
        self.list_error = list_error
        self.queries = []
        self.probes = []

    def check_connection(self):
        return "DC01"

    def list_archives(self, directory):
        if self.list_error:
            raise SourceReadError(self.list_error)
        return list(self.archives)

    def query(self, path, predicate):
        self.queries.append((path, predicate))
        if path in self.unreadable:
            raise SourceReadError(f"{path}: access denied")
        evs = self.events.get(path, [])
        if not evs:
            raise NoMatchingEvents(path)
        for e in evs:
            yield e

    def probe(self, path):
        self.probes.append(path)
        if path not in self.windows:
            raise SourceReadError(f"{path}: no events")
        return self.windows[path]
