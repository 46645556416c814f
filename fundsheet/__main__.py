import sys

from fundsheet.cli import main


sys.exit(main())
