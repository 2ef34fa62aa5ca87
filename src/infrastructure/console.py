import threading
import logging

log = logging.getLogger('console')


class ConsoleReader(threading.Thread):
    """
    Forwards every line a server process prints to the log, tagged with the node name.
    Ends quietly when the stream closes, which is how a stopped process shows up here.
    The stream is closed once the reader is done with it.
    """

    def __init__(self, stream, name):
        super().__init__(name=f"console-{name}", daemon=True)
        self.stream = stream
        self.source = name
        self.lines = 0

    def run(self):
        try:
            for line in self.stream:
                self.lines += 1
                log.info(f"[{self.source}] {line.rstrip()}")
        except (OSError, ValueError):
            # Stream closed underneath us while the process was shutting down.
            return
        finally:
            self.stream.close()
