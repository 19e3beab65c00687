import os
import sys
import traceback
import multiprocessing
from datetime import datetime

HOST = "127.0.0.1"
PORT = 8124


def get_error_log_path():
    """Get the path for the error log file."""
    return os.path.expanduser("~/Documents/readnotes_error.log")


def log_error(message, include_traceback=True):
    """Log an error message to file."""
    try:
        error_log = get_error_log_path()
        with open(error_log, "a", encoding="utf-8") as f:
            f.write(f"\n[{datetime.now().isoformat()}]\n")
            f.write(f"{message}\n")
            if include_traceback:
                f.write(traceback.format_exc())
                f.write("\n")
    except OSError:
        pass


def log_info(message):
    """Log an info message to file."""
    try:
        error_log = get_error_log_path()
        with open(error_log, "a", encoding="utf-8") as f:
            f.write(f"[{datetime.now().isoformat()}] INFO: {message}\n")
    except OSError:
        pass


def get_data_directory():
    """
    Get the directory that holds the notes folder.
    For macOS .app bundles, this is the directory containing the .app,
    NOT the internal _MEIPASS directory.
    """
    if getattr(sys, 'frozen', False):
        executable_path = sys.executable

        # readnotes.app/Contents/MacOS/readnotes -> directory containing the .app
        if '.app/Contents/MacOS' in executable_path:
            app_bundle_path = os.path.dirname(os.path.dirname(os.path.dirname(executable_path)))
            return os.path.dirname(app_bundle_path)
        return os.path.dirname(executable_path)

    # Running as a script - use current directory
    return os.getcwd()


def get_storage_directory():
    return os.path.join(get_data_directory(), "readnotes_data")


def main():
    try:
        if getattr(sys, 'frozen', False) and sys.platform == 'win32':
            multiprocessing.freeze_support()

        # Set the storage location before server.py builds its store
        storage_dir = get_storage_directory()
        os.environ.setdefault('READNOTES_STORAGE_DIR', storage_dir)

        if getattr(sys, 'frozen', False):
            log_info("Starting readnotes")
            log_info(f"Executable: {sys.executable}")
            log_info(f"Storage directory: {os.environ['READNOTES_STORAGE_DIR']}")

        # Import here after setting up the environment
        import uvicorn
        from server import app

        # Frozen Windows builds may have no stdout, which breaks uvicorn logging
        if getattr(sys, 'frozen', False) and sys.stdout is None:
            null_file = open(os.devnull, 'w')
            sys.stdout = null_file
            sys.stderr = null_file

        uvicorn.run(app, host=HOST, port=PORT, log_level="info")
    except Exception as e:
        log_error(f"Fatal error: {e}")
        raise


if __name__ == "__main__":
    main()
