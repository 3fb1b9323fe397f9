# petrd/__main__.py
from petrd.cli import main

raise SystemExit(main())
