from video_workstation.cli import main

raise SystemExit(main())
