import sys

from query_node_harness.main import main

sys.exit(main())
