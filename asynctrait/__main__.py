# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
import sys

from asynctrait.driver import main

sys.exit(main())
