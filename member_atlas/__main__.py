import sys

from member_atlas.cli import main

sys.exit(main())
