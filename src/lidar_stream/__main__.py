import sys

from lidar_stream.main import main


sys.exit(main())
