from request_controller.cli import main

main()
