"""Package entry point for ``python -m aural_odyssey``.

WHY: Users run ``python -m aural_odyssey narrate book.pdf`` for CLI mode,
or ``python -m aural_odyssey --gui`` for the desktop storyteller.

HOW: Checks sys.argv for the ``--gui`` flag. If present, launches the
Tkinter GUI. Otherwise, delegates to the CLI's main() function.
"""

import sys

if __name__ == "__main__":
    if "--gui" in sys.argv:
        from aural_odyssey.gui import main as gui_main
        gui_main()
    else:
        from aural_odyssey.cli import main
        main()
