import sys

from ward_rota.cli import main

sys.exit(main())
