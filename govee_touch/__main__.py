import sys

from govee_touch.main import main

sys.exit(main())
