import sys

from v5_deploy.runner import main

sys.exit(main())
